"""
examcal: exam schedules as subscribable iCalendar feeds.

Typical use:

    from examcal.feed import generate
    from examcal.model import CalendarOptions

    ics = generate(rows, {"school": ["ETSINF"]}, CalendarOptions(calendar_name="My exams"))
"""
