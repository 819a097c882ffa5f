import pytest

try:
    import traindown as td
except Exception as e:  # pragma: no cover
    pytest.skip(f"traindown unavailable: {e}", allow_module_level=True)


def collect_codes(issues):
    return {(i.get("level"), i.get("code")) for i in issues}


def test_bad_reps_triggers_W020():
    s = td.parse_text("MOVEMENT: Squat\nLOAD: 100\nREPS: five\n")
    issues = td.lint(s)
    assert ("warning", "W020") in collect_codes(issues)
    assert issues[0]["path"] == "LINE[3]"


def test_bad_load_triggers_W021():
    s = td.parse_text("MOVEMENT: Squat\nLOAD: 100kg\n")
    assert ("warning", "W021") in collect_codes(td.lint(s))


def test_bad_date_triggers_W010(fixed_clock):
    s = td.parse_text("DATE: the other day\n", clock=fixed_clock)
    assert ("warning", "W010") in collect_codes(td.lint(s))


def test_metadata_without_separator_triggers_W030():
    s = td.parse_text("META: bodyweight 80\n")
    assert ("warning", "W030") in collect_codes(td.lint(s))


def test_clean_session_has_no_issues(sample_text):
    assert td.lint(td.parse_text(sample_text)) == []
