import sys

import atheris

with atheris.instrument_imports():
    from meetwatch.alerts.config import TimingPreferences
    from meetwatch.utils import (
        parse_bool,
        parse_int,
        sanitize_hostname_for_topic,
        split_csv,
    )


def TestOneInput(data: bytes) -> None:
    """Fuzz env parsing helpers and preference clamping with arbitrary input."""
    value = data.decode("utf-8", errors="ignore")

    sanitize_hostname_for_topic(value)

    # Parsers fall back to defaults and should never raise
    parse_bool(value)
    parse_int(value, default=0)
    split_csv(value)

    fdp = atheris.FuzzedDataProvider(data)
    prefs = TimingPreferences(
        default_minutes=fdp.ConsumeIntInRange(-1000, 1000),
        short_minutes=fdp.ConsumeIntInRange(-1000, 1000),
        sound_minutes=fdp.ConsumeIntInRange(-1000, 1000),
    ).clamped()
    assert 0 <= prefs.default_minutes <= 60
    assert 0 <= prefs.short_minutes <= 60
    assert 0 <= prefs.sound_minutes <= 60


def main() -> None:
    atheris.Setup(sys.argv, TestOneInput)
    atheris.Fuzz()


if __name__ == "__main__":
    main()
