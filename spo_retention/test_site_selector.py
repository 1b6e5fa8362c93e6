#!/usr/bin/env python3
"""
Unit tests for interactive site selection.

Input is scripted through ``input_fn`` so no terminal is needed.
"""

import unittest
from unittest.mock import Mock

from spo_retention.models import SiteRecord
from spo_retention.site_selector import find_matches, resolve_selection, select_sites


def scripted(*lines):
    """input_fn that replays ``lines``; exposes the iterator as .feed."""
    feed = iter(lines)

    def input_fn(prompt=''):
        return next(feed)

    input_fn.feed = feed
    return input_fn


def make_sites():
    return [
        SiteRecord.create('https://contoso.sharepoint.com/sites/projects', 'Projects'),
        SiteRecord.create('https://contoso.sharepoint.com/sites/archive', 'Archive'),
        SiteRecord.create('https://contoso.sharepoint.com/sites/hr', 'Human Resources'),
    ]


class TestSiteRecord(unittest.TestCase):
    """Tests for derived match keys."""

    def test_normalized_fields(self):
        site = SiteRecord.create('https://contoso.sharepoint.com/sites/Team-A/', 'Team A (EU)')
        self.assertEqual(site.url, 'https://contoso.sharepoint.com/sites/Team-A')
        self.assertEqual(site.normalized_title, 'teamaeu')
        self.assertEqual(site.relative_path, 'sitesteama')
        self.assertEqual(site.path_segments, ('sites', 'teama'))
        self.assertEqual(site.last_segment, 'teama')

    def test_root_site_has_no_segments(self):
        site = SiteRecord.create('https://contoso.sharepoint.com', 'Root')
        self.assertEqual(site.path_segments, ())
        self.assertEqual(site.last_segment, '')


class TestFindMatches(unittest.TestCase):
    """Tests for single-token resolution."""

    def setUp(self):
        self.sites = make_sites()

    def test_ordinal(self):
        self.assertEqual(find_matches('2', self.sites), [self.sites[1]])

    def test_ordinal_out_of_range(self):
        self.assertEqual(find_matches('0', self.sites), [])
        self.assertEqual(find_matches('4', self.sites), [])

    def test_case_and_punctuation_ignored(self):
        """'Proj-Ects' should match the site titled 'Projects'."""
        self.assertEqual(find_matches('Proj-Ects', self.sites), [self.sites[0]])

    def test_url_fragment(self):
        self.assertEqual(find_matches('/sites/hr', self.sites), [self.sites[2]])

    def test_full_url(self):
        matches = find_matches('https://contoso.sharepoint.com/sites/archive', self.sites)
        self.assertEqual(matches, [self.sites[1]])

    def test_fragment_common_to_all_sites(self):
        self.assertEqual(len(find_matches('contoso', self.sites)), 3)

    def test_no_match(self):
        self.assertEqual(find_matches('finance', self.sites), [])

    def test_punctuation_only_token_matches_nothing(self):
        self.assertEqual(find_matches('--', self.sites), [])

    def test_only_plain_digits_are_ordinals(self):
        for token in ('+2', '1_0', '\uff12', ' 2'):
            self.assertEqual(find_matches(token, self.sites), [], token)

    def test_non_latin_title(self):
        sales = SiteRecord.create('https://contoso.sharepoint.com/sites/s1', 'Отдел продаж')
        sites = self.sites + [sales]

        self.assertEqual(sales.normalized_title, 'отделпродаж')
        self.assertEqual(find_matches('ПРОДАЖ', sites), [sales])
        self.assertEqual(find_matches('отдел-продаж', sites), [sales])


class TestResolveSelection(unittest.TestCase):
    """Tests for comma-separated selections."""

    def setUp(self):
        self.sites = make_sites()

    def test_same_site_twice_is_kept_once(self):
        selected, invalid = resolve_selection('2, archive', self.sites)
        self.assertEqual(selected, [self.sites[1]])
        self.assertEqual(invalid, [])

    def test_all_invalid_tokens_reported(self):
        selected, invalid = resolve_selection('1, nope, 9', self.sites)
        self.assertEqual(invalid, ['nope', '9'])

    def test_disambiguation_accepts_valid_reply(self):
        sites = [
            SiteRecord.create('https://contoso.sharepoint.com/sites/finance', 'Finance'),
            SiteRecord.create('https://contoso.sharepoint.com/sites/finance-archive', 'Finance Archive'),
        ]
        selected, invalid = resolve_selection('finance', sites, scripted('2'))
        self.assertEqual(selected, [sites[1]])
        self.assertEqual(invalid, [])

    def test_disambiguation_invalid_reply_marks_token_invalid(self):
        sites = [
            SiteRecord.create('https://contoso.sharepoint.com/sites/finance', 'Finance'),
            SiteRecord.create('https://contoso.sharepoint.com/sites/finance-archive', 'Finance Archive'),
        ]
        for reply in ('3', 'x', '', '+1'):
            selected, invalid = resolve_selection('finance', sites, scripted(reply))
            self.assertEqual(invalid, ['finance'])

    def test_empty_line_is_invalid(self):
        selected, invalid = resolve_selection(' , ', self.sites)
        self.assertEqual(selected, [])
        self.assertEqual(len(invalid), 1)


class TestSelectSites(unittest.TestCase):
    """Tests for the full prompt loop."""

    def setUp(self):
        self.sites = make_sites()

    def test_empty_site_list_does_not_prompt(self):
        input_fn = Mock()
        self.assertIsNone(select_sites([], input_fn))
        input_fn.assert_not_called()

    def test_quit(self):
        self.assertIsNone(select_sites(self.sites, scripted('q')))

    def test_all_returns_every_site_once(self):
        result = select_sites(self.sites, scripted('all', 'y'))
        self.assertEqual(result, self.sites)
        self.assertEqual(len({s.url for s in result}), len(self.sites))

    def test_confirmation_returns_before_later_input(self):
        """'1,Archive' then 'y' returns two sites; the following 'q' is never read."""
        input_fn = scripted('1,Archive', 'y', 'q')
        result = select_sites(self.sites, input_fn)

        self.assertEqual(result, [self.sites[0], self.sites[1]])
        self.assertEqual(next(input_fn.feed), 'q')

    def test_invalid_token_rejects_whole_selection(self):
        input_fn = scripted('1,nomatch', '3', 'y')
        result = select_sites(self.sites, input_fn)
        self.assertEqual(result, [self.sites[2]])

    def test_declined_confirmation_restarts(self):
        result = select_sites(self.sites, scripted('1', 'n', '2', 'y'))
        self.assertEqual(result, [self.sites[1]])

    def test_unclear_confirmation_is_asked_again(self):
        result = select_sites(self.sites, scripted('1', 'maybe', 'yes'))
        self.assertEqual(result, [self.sites[0]])


if __name__ == '__main__':
    unittest.main()
