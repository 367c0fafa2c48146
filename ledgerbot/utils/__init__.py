from .timeranges import DateRange, day_range, local_now, month_range

__all__ = [
    "DateRange",
    "day_range",
    "local_now",
    "month_range",
]
