"""
Downloadable summary of one evaluated timed test
"""
from .database import to_db_time, utcnow


def format_time(total_seconds):
    """Seconds -> HH:MM:SS"""
    hours, rest = divmod(int(total_seconds), 3600)
    minutes, seconds = divmod(rest, 60)
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}"


def build_result_export(drawing_type, duration_seconds, result, date=None):
    """Summary written to the downloadable result file"""
    return {
        'date': date or to_db_time(utcnow()),
        'drawingType': drawing_type,
        'duration': format_time(duration_seconds),
        'durationSeconds': duration_seconds,
        'score': result.get('score'),
        'accuracy': result.get('accuracy'),
        'errors': list(result.get('errors') or []),
        'feedback': result.get('feedback', ''),
    }
