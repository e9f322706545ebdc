"""Unit tests for the scheduler worker tasks."""

import pytest

from scheduler_worker.tasks import due_checks


@pytest.fixture
def settings_with_shops(test_settings, monkeypatch: pytest.MonkeyPatch):
    def apply(shops: str):
        test_settings.scheduled_shops = shops
        monkeypatch.setattr(due_checks, "get_settings", lambda: test_settings)
        return test_settings

    return apply


def test_no_configured_shops(settings_with_shops) -> None:
    settings_with_shops("")

    result = due_checks.run_due_checks()

    assert result["shops_checked"] == 0
    assert result["results"] == {}


def test_checks_every_configured_shop(settings_with_shops, monkeypatch: pytest.MonkeyPatch) -> None:
    settings_with_shops("https://a.myshopify.com/, b.myshopify.com")
    seen = {}

    async def fake_check_shops(shops, trigger, reference=None):
        seen["shops"], seen["trigger"] = shops, trigger
        return {
            "a.myshopify.com": {"success": True, "processed": True},
            "b.myshopify.com": {"success": False, "error": "boom"},
        }

    monkeypatch.setattr(due_checks, "check_shops", fake_check_shops)

    result = due_checks.run_due_checks()

    assert seen == {"shops": ["a.myshopify.com", "b.myshopify.com"], "trigger": "beat"}
    assert result["shops_checked"] == 2
    assert result["shops_processed"] == 1
    assert result["errors"] == 1


def test_single_shop_task_parses_reference(monkeypatch: pytest.MonkeyPatch) -> None:
    captured = {}

    async def fake_check_shops(shops, trigger, reference=None):
        captured["reference"] = reference
        return {shops[0]: {"success": True, "processed": False}}

    monkeypatch.setattr(due_checks, "check_shops", fake_check_shops)

    result = due_checks.run_due_check_for_shop("a.myshopify.com", reference="2026-10-01T00:00:00")

    assert result == {"success": True, "processed": False}
    assert captured["reference"].month == 10
