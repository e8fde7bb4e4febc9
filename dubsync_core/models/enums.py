# dubsync_core/models/enums.py
# -*- coding: utf-8 -*-
from enum import Enum


class SyncStatus(Enum):
    IN_SYNC = 'in_sync'
    OFFSET = 'offset'
    DRIFT = 'drift'
    STRUCTURAL_DIFFERENCE = 'structural_difference'
    UNSYNCABLE = 'unsyncable'


class PeakType(Enum):
    TRANSIENT = 'transient'
    SUSTAINED = 'sustained'
    SILENCE_BREAK = 'silence_break'


class CorrectionType(Enum):
    NONE = 'none'
    DELAY = 'delay'
    TRIM_PAD = 'trim_pad'
    STRETCH = 'stretch'
    SEGMENT_REPAIR = 'segment_repair'
    MANUAL = 'manual'


class DifferenceType(Enum):
    CUT = 'cut'              # target is missing reference material
    INSERTION = 'insertion'  # target carries extra material


class EventType(Enum):
    SILENCE_BOUNDARY = 'silence_boundary'
    ANCHOR_MATCH = 'anchor_match'
    CUT = 'cut'
    INSERTION = 'insertion'
    DRIFT = 'drift'
    OFFSET_DISAGREEMENT = 'offset_disagreement'
