"""Tests for signature helpers."""

from radar.scanner import signatures


def test_matches_any_returns_hits_case_insensitively():
    assert signatures.matches_any("Running XMRIG 6.2", signatures.SUSPICIOUS_PROCESSES) == ["xmrig"]


def test_ip_with_port_counts_as_suspicious_content():
    assert signatures.contains_suspicious_content("connect('45.12.1.9:3333')") is True
    assert signatures.contains_suspicious_content("version 1.2.3.4") is False


def test_legitimate_log_phrases():
    assert signatures.is_legitimate_log('Done (3.2s)! For help, type "help"') is True
    assert signatures.is_legitimate_log("new job from pool") is False
