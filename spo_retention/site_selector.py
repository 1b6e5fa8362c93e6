"""
Interactive site selection.

The operator types one line: ``q`` to cancel, ``all`` for every site, or a
comma-separated list of tokens. Each token is an ordinal from the numbered
list, or a name / URL fragment matched after normalization (case and
punctuation are ignored). Every token must resolve to exactly one site or the
whole line is rejected and the prompt repeats.
"""

import re
from typing import List, Optional, Sequence

from spo_retention.console import logger, ask, ask_yes_no, InputFn
from spo_retention.models import SiteRecord, normalize

# Ordinals are plain ASCII digits ("+2", "1_0" are not ordinals)
ORDINAL = re.compile(r"\d+", re.ASCII)


def print_sites(sites: Sequence[SiteRecord]):
    logger.info(f"\nFound {len(sites)} site(s):\n")
    for idx, site in enumerate(sites, 1):
        logger.info(f"  {idx}. {site.title} - {site.url}")


def find_matches(token: str, sites: Sequence[SiteRecord]) -> List[SiteRecord]:
    """Sites a single token refers to (ordinal first, then fuzzy match)."""
    if ORDINAL.fullmatch(token):
        ordinal = int(token)
        return [sites[ordinal - 1]] if 1 <= ordinal <= len(sites) else []

    needle = normalize(token)
    if not needle:
        return []

    return [
        site for site in sites
        if needle in site.normalized_title
        or needle in site.normalized_url
        or needle in site.relative_path
        or needle in site.path_segments
        or needle == site.last_segment
    ]


def disambiguate(token: str, matches: Sequence[SiteRecord],
                 input_fn: InputFn = None) -> Optional[SiteRecord]:
    """Ask which of several matches was meant. An invalid reply returns None."""
    logger.info(f"\n'{token}' matches {len(matches)} sites:")
    for idx, site in enumerate(matches, 1):
        logger.info(f"  {idx}. {site.title} - {site.url}")

    reply = ask(f"Which one did you mean for '{token}'? (1-{len(matches)}): ", input_fn)
    if not ORDINAL.fullmatch(reply):
        return None
    choice = int(reply)
    if 1 <= choice <= len(matches):
        return matches[choice - 1]
    return None


def resolve_selection(line: str, sites: Sequence[SiteRecord],
                      input_fn: InputFn = None):
    """Resolve a comma-separated selection.

    Returns ``(selected, invalid_tokens)``. ``selected`` is de-duplicated by
    URL in first-resolved order and is only meaningful when no token failed.
    """
    selected: List[SiteRecord] = []
    seen_urls = set()
    invalid: List[str] = []

    tokens = [t.strip() for t in line.split(',')]
    for token in tokens:
        if not token:
            continue

        matches = find_matches(token, sites)
        if len(matches) == 1:
            site = matches[0]
        elif len(matches) > 1:
            site = disambiguate(token, matches, input_fn)
        else:
            site = None

        if site is None:
            invalid.append(token)
            continue

        if site.url not in seen_urls:
            seen_urls.add(site.url)
            selected.append(site)

    if not selected and not invalid:
        invalid.append(line.strip() or '(empty)')

    return selected, invalid


def select_sites(all_sites: Sequence[SiteRecord],
                 input_fn: InputFn = None) -> Optional[List[SiteRecord]]:
    """Prompt until the operator confirms a selection; None means cancelled."""
    if not all_sites:
        logger.warning("No sites found")
        return None

    print_sites(all_sites)

    while True:
        line = ask(
            "\nSelect sites (numbers, names or URL fragments separated by commas; "
            "'all' for every site, 'q' to cancel): ",
            input_fn,
        )

        if line.lower() == 'q':
            logger.info("Selection cancelled")
            return None

        if line.lower() == 'all':
            selected = list(all_sites)
        else:
            selected, invalid = resolve_selection(line, all_sites, input_fn)
            if invalid:
                logger.error(f"Invalid selection: {', '.join(invalid)}")
                logger.info("Nothing was selected - please try again.")
                continue

        logger.info(f"\nSelected {len(selected)} site(s):")
        for site in selected:
            logger.info(f"  • {site.title} - {site.url}")

        if ask_yes_no("Proceed with these sites? (y/n): ", input_fn):
            return selected
