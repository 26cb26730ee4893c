"""Tests for rich menu provisioning."""

import threading
import time
from unittest.mock import MagicMock

from linebot.exceptions import LineBotApiError
from linebot.models import Error

from staff_bot.services.rich_menu_service import MENU_HEIGHT, MENU_WIDTH, RichMenuService, build_rich_menu


def _api_error(status_code=500):
    return LineBotApiError(status_code, {}, error=Error(message="boom"))


class TestBuildRichMenu:
    def test_grid_covers_image(self):
        menu = build_rich_menu("menu")
        bounds = [area.bounds for area in menu.areas]
        assert len(bounds) == 4
        assert {(b.x, b.y) for b in bounds} == {(0, 0), (1250, 0), (0, 843), (1250, 843)}
        assert all(b.width == MENU_WIDTH // 2 and b.height == MENU_HEIGHT // 2 for b in bounds)

    def test_actions_map_to_postbacks(self):
        menu = build_rich_menu("menu")
        assert [area.action.data for area in menu.areas] == [
            "action=show_menu",
            "action=view_preferences",
            "action=change_store",
            "action=switch_store",
        ]

    def test_uneven_item_count(self):
        menu = build_rich_menu("menu", [("a", "action=a"), ("b", "action=b"), ("c", "action=c")], columns=3)
        assert [area.bounds.x for area in menu.areas] == [0, 833, 1666]
        assert all(area.bounds.height == MENU_HEIGHT for area in menu.areas)


class TestProvisioning:
    def test_default_menu_is_linked(self, line_bot_service, line_api):
        service = RichMenuService(line_bot_service, "menu", "missing.png", default_rich_menu_id="rm-1")
        assert service.provision_for_user("U1") is True
        line_api.create_rich_menu.assert_not_called()
        line_api.link_rich_menu_to_user.assert_called_once_with("U1", "rm-1", timeout=10.0)

    def test_existing_menu_reused_by_name(self, line_bot_service, line_api):
        existing = MagicMock(rich_menu_id="rm-existing")
        existing.name = "menu"
        line_api.get_rich_menu_list.return_value = [existing]
        service = RichMenuService(line_bot_service, "menu", "missing.png")

        assert service.provision_for_user("U1") is True
        line_api.create_rich_menu.assert_not_called()
        line_api.link_rich_menu_to_user.assert_called_once_with("U1", "rm-existing", timeout=10.0)

    def test_creates_menu_and_uploads_image(self, line_bot_service, line_api, tmp_path):
        image = tmp_path / "menu.png"
        image.write_bytes(b"\x89PNG fake")
        line_api.get_rich_menu_list.return_value = []
        line_api.create_rich_menu.return_value = "rm-new"
        service = RichMenuService(line_bot_service, "menu", str(image))

        assert service.provision_for_user("U1") is True
        line_api.set_rich_menu_image.assert_called_once_with("rm-new", "image/png", b"\x89PNG fake", timeout=10.0)
        line_api.link_rich_menu_to_user.assert_called_once_with("U1", "rm-new", timeout=10.0)

    def test_missing_image_is_logged_not_raised(self, line_bot_service, line_api, tmp_path):
        line_api.get_rich_menu_list.return_value = []
        service = RichMenuService(line_bot_service, "menu", str(tmp_path / "nope.png"))
        assert service.provision_for_user("U1") is False
        line_api.create_rich_menu.assert_not_called()

    def test_image_upload_failure_deletes_menu(self, line_bot_service, line_api, tmp_path):
        image = tmp_path / "menu.png"
        image.write_bytes(b"img")
        line_api.get_rich_menu_list.return_value = []
        line_api.create_rich_menu.return_value = "rm-new"
        line_api.set_rich_menu_image.side_effect = _api_error()
        service = RichMenuService(line_bot_service, "menu", str(image))

        assert service.provision_for_user("U1") is False
        line_api.delete_rich_menu.assert_called_once_with("rm-new", timeout=10.0)
        line_api.link_rich_menu_to_user.assert_not_called()

    def test_link_failure_returns_false(self, line_bot_service, line_api):
        line_api.link_rich_menu_to_user.side_effect = _api_error(400)
        service = RichMenuService(line_bot_service, "menu", "missing.png", default_rich_menu_id="rm-1")
        assert service.provision_for_user("U1") is False

    def test_unexpected_error_is_logged_not_raised(self, line_bot_service, line_api):
        line_api.get_rich_menu_list.side_effect = ValueError("bad menu payload")
        service = RichMenuService(line_bot_service, "menu", "missing.png")
        assert service.provision_for_user("U1") is False
        line_api.link_rich_menu_to_user.assert_not_called()


class TestMenuReuse:
    def test_resolved_menu_is_reused(self, line_bot_service, line_api, tmp_path):
        image = tmp_path / "menu.png"
        image.write_bytes(b"img")
        line_api.get_rich_menu_list.return_value = []
        line_api.create_rich_menu.return_value = "rm-new"
        service = RichMenuService(line_bot_service, "menu", str(image))

        assert service.provision_for_user("U1") is True
        assert service.provision_for_user("U2") is True
        line_api.get_rich_menu_list.assert_called_once()
        line_api.create_rich_menu.assert_called_once()
        assert line_api.link_rich_menu_to_user.call_count == 2

    def test_concurrent_follows_create_one_menu(self, line_bot_service, line_api, tmp_path):
        image = tmp_path / "menu.png"
        image.write_bytes(b"img")
        line_api.get_rich_menu_list.side_effect = lambda **kwargs: time.sleep(0.05) or []
        line_api.create_rich_menu.return_value = "rm-new"
        service = RichMenuService(line_bot_service, "menu", str(image))

        results = []
        threads = [
            threading.Thread(target=lambda uid=uid: results.append(service.provision_for_user(uid)))
            for uid in ("U1", "U2", "U3")
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert results == [True, True, True]
        line_api.create_rich_menu.assert_called_once()
        line_api.set_rich_menu_image.assert_called_once()
