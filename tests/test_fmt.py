import pytest

try:
    import traindown as td
except Exception as e:  # pragma: no cover
    pytest.skip(f"traindown unavailable: {e}", allow_module_level=True)


def test_render_tokens_idempotent():
    raw = "date: 2024-03-01\n\n\n# top\nmovement:Squat   \n load:100\nreps :5\nsuperset: Dips\n  meta: tempo: 3-1-1\n"
    once = td.render_tokens(td.Scanner().scan(raw))
    twice = td.render_tokens(td.Scanner().scan(once))
    assert once == twice
    assert once == (
        "DATE: 2024-03-01\n"
        "# top\n"
        "\n"
        "MOVEMENT: Squat\n"
        "  LOAD: 100\n"
        "  REPS: 5\n"
        "\n"
        "SUPERSET: Dips\n"
        "  META: tempo: 3-1-1\n"
    )


def test_render_keeps_tokens():
    raw = "NOTE: a\nMOVEMENT: Row\nUNIT: kg\nPERCENT: 70\nFAILS: 1\nSETS: 2\n#\n"
    tokens = td.Scanner().scan(raw)
    assert td.Scanner().scan(td.render_tokens(tokens)) == tokens


def test_render_empty():
    assert td.render_tokens([]) == ""
