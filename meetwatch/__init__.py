"""
meetwatch - meeting alert daemon package

Root package for meetwatch, containing shared helpers and the alert engine
that turns calendar events into full-screen overlay alerts.

Core modules:
- utils: Environment parsing helpers
- datetime_utils: Timezone normalization helpers
- alerts: Alert scheduling engine, timing policy, snooze handling and adapters
"""

__version__ = "0.4.2"
