from fleetscan import config
from fleetscan.feedback import ScanOutcome, build_feedback


def test_primary_prefixes_parsed_upper(monkeypatch):
    monkeypatch.setattr(config.settings, "PRIMARY_CODE_PREFIXES", " s0, e0 ,,")
    assert config.get_primary_code_prefixes() == ["S0", "E0"]


def test_enabled_modes_keep_fixed_order(monkeypatch):
    monkeypatch.setattr(config.settings, "ENABLED_MODES", "link,single")
    assert config.get_enabled_modes() == ["single", "link"]


def test_enabled_modes_empty_falls_back_to_single(monkeypatch):
    monkeypatch.setattr(config.settings, "ENABLED_MODES", "nonsense")
    assert config.get_enabled_modes() == ["single"]


def test_resolve_enabled_mode(monkeypatch):
    monkeypatch.setattr(config.settings, "ENABLED_MODES", "bulk,link")
    assert config.resolve_enabled_mode("link") == "link"
    assert config.resolve_enabled_mode("single") == "bulk"


def test_feedback_for_rejections_is_silent():
    for outcome in (
        ScanOutcome.ACCEPTED_BULK_DUPLICATE_IGNORED,
        ScanOutcome.LINK_PRIMARY_AWAITED_REJECT,
        ScanOutcome.LINK_SECONDARY_AWAITED_REJECT,
        ScanOutcome.REJECTED_MALFORMED,
        ScanOutcome.SUPPRESSED,
    ):
        fb = build_feedback(outcome)
        assert fb.beeps == 0
        assert fb.toast is None
