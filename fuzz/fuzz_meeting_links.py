import sys

import atheris

with atheris.instrument_imports():
    from meetwatch.alerts.links import (
        TRUSTED_MEETING_DOMAINS,
        detect_primary_link,
        detect_provider,
        extract_links,
        extract_meeting_links,
        is_valid_meeting_url,
    )


def TestOneInput(data: bytes) -> None:
    """Fuzz link extraction; every accepted link must be https on a trusted host."""
    text = data.decode("utf-8", errors="ignore")

    for url in extract_links(text):
        detect_provider(url)
        is_valid_meeting_url(url)

    links = extract_meeting_links(text)
    for url in links:
        assert url.lower().startswith("https://")
    primary = detect_primary_link(links)
    if primary is not None:
        assert primary in links
        assert any(domain in primary.lower() for domain in TRUSTED_MEETING_DOMAINS)


def main() -> None:
    atheris.Setup(sys.argv, TestOneInput)
    atheris.Fuzz()


if __name__ == "__main__":
    main()
