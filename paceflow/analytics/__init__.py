#!/usr/bin/env python3
"""
Analytics - lap/session summaries and pace estimation
"""

from .summarizer import (
    elapsed_seconds,
    total_moving_time,
    total_ascent_descent,
    distance_covered,
    average_paces,
    record_statistics,
    lap_from_records,
    session_from_laps,
    recompute_session,
    complete_session,
    accumulate_session,
    summarize_sessions,
    pace_by_grade,
    estimate_pace,
)

__all__ = [
    # Building blocks
    'elapsed_seconds', 'total_moving_time', 'total_ascent_descent',
    'distance_covered', 'average_paces', 'record_statistics',

    # Laps and sessions
    'lap_from_records', 'session_from_laps', 'recompute_session', 'complete_session',
    'accumulate_session',
    'summarize_sessions',

    # Pace estimation
    'pace_by_grade', 'estimate_pace',
]
