"""
Tests for the Redis command router.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from application.command_handler import CommandHandler


@pytest.fixture
def api():
    api = MagicMock()
    for name in (
        "start_session",
        "stop_session",
        "session_status",
        "get_serial_number",
        "get_note_inventory",
        "set_denomination_route",
        "payout",
        "float_amount",
        "empty_cashbox",
    ):
        setattr(api, name, AsyncMock(return_value={"success": True, "message": name, "data": {}}))
    return api


@pytest.fixture
def handler(api):
    return CommandHandler(api)


class TestCommandHandler:
    """Tests for CommandHandler.execute()."""

    @pytest.mark.asyncio
    async def test_unknown_command(self, handler):
        response = await handler.execute({"command": "dispense_coffee", "command_id": 7})

        assert response["command_id"] == 7
        assert response["success"] is False
        assert "dispense_coffee" in response["message"]

    @pytest.mark.asyncio
    async def test_missing_required_args(self, handler, api):
        response = await handler.execute({"command": "payout", "command_id": 1, "data": {}})

        assert response["success"] is False
        assert "amount" in response["message"]
        api.payout.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_required_and_optional_args(self, handler, api):
        response = await handler.execute({
            "command": "start_session",
            "command_id": "abc",
            "data": {"operator_id": "op-1", "port": "/dev/ttyACM0", "unused": True},
        })

        assert response == {
            "command_id": "abc",
            "success": True,
            "message": "start_session",
            "data": {},
        }
        api.start_session.assert_awaited_once_with(operator_id="op-1", port="/dev/ttyACM0")

    @pytest.mark.asyncio
    async def test_no_data(self, handler, api):
        response = await handler.execute({"command": "stop_session", "command_id": 2, "data": None})

        assert response["success"] is True
        api.stop_session.assert_awaited_once_with()

    @pytest.mark.asyncio
    async def test_failure_result_is_passed_through(self, handler, api):
        api.empty_cashbox.return_value = {
            "success": False,
            "message": "No running cash session",
            "data": {"error": "SessionNotRunningError"},
        }

        response = await handler.execute({"command": "empty_cashbox", "command_id": 3})

        assert response["success"] is False
        assert response["data"] == {"error": "SessionNotRunningError"}

    @pytest.mark.asyncio
    async def test_handler_exception(self, handler, api):
        api.session_status.side_effect = RuntimeError("boom")

        response = await handler.execute({"command": "session_status", "command_id": 4})

        assert response["success"] is False
        assert response["message"] == "Error: boom"

    def test_available_commands(self, handler):
        names = {cmd["name"] for cmd in handler.get_available_commands()}
        assert names == {
            "start_session",
            "stop_session",
            "session_status",
            "get_serial_number",
            "get_note_inventory",
            "set_denomination_route",
            "payout",
            "float_amount",
            "empty_cashbox",
        }
