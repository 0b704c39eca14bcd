"""
Command Handler - Routes Redis commands to cash reader API methods.

A command is a JSON object {"command", "command_id", "data"}; the
response echoes command_id with success, message and data.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Awaitable, Optional

from loggers import logger


# Type alias for command handlers
CommandHandlerFunc = Callable[..., Awaitable[dict[str, Any]]]


@dataclass
class CommandResponse:
    """
    Standardized response for command execution.

    Attributes:
        command_id: The ID of the executed command.
        success: Whether the command succeeded.
        message: Human-readable message.
        data: Optional response data.
    """

    command_id: Optional[Any] = None
    success: bool = False
    message: Optional[str] = None
    data: Any = None

    def to_dict(self) -> dict[str, Any]:
        """Convert the response to a dictionary."""
        return {
            "command_id": self.command_id,
            "success": self.success,
            "message": self.message,
            "data": self.data,
        }


@dataclass
class CommandDefinition:
    """
    Definition of a command.

    Attributes:
        name: Command name.
        handler: Handler function.
        required_args: Argument names that must be present.
        optional_args: Argument names passed only when present.
        description: Human-readable description.
    """

    name: str
    handler: CommandHandlerFunc
    required_args: list[str]
    optional_args: list[str] = field(default_factory=list)
    description: str = ""


class CommandHandler:
    """
    Routes commands to the CashReaderFacade.
    """

    def __init__(self, api: Any) -> None:
        """
        Initialize the command handler.

        Args:
            api: The CashReaderFacade instance.
        """
        self._api = api
        self._commands: dict[str, CommandDefinition] = {}
        self._register_default_commands()

    def _register_default_commands(self) -> None:
        """Register all default command handlers."""
        # Session lifecycle
        self.register(
            "start_session",
            self._api.start_session,
            ["operator_id"],
            "Start a cash session",
            optional_args=["port", "baudrate", "country_code"],
        )
        self.register(
            "stop_session",
            self._api.stop_session,
            [],
            "Stop the cash session and return the ledger",
            optional_args=["operator_id"],
        )
        self.register(
            "session_status",
            self._api.session_status,
            [],
            "Get cash session status",
        )

        # Device queries
        self.register(
            "get_serial_number",
            self._api.get_serial_number,
            [],
            "Get the NV200 serial number",
        )
        self.register(
            "get_note_inventory",
            self._api.get_note_inventory,
            [],
            "Get the route of every denomination",
        )

        # Payout / routing
        self.register(
            "set_denomination_route",
            self._api.set_denomination_route,
            ["value", "route"],
            "Route a denomination to payout or cashbox",
        )
        self.register(
            "payout",
            self._api.payout,
            ["amount"],
            "Pay out an amount",
        )
        self.register(
            "float_amount",
            self._api.float_amount,
            ["amount"],
            "Keep an amount in the payout, move the rest to the cashbox",
            optional_args=["min_payout"],
        )
        self.register(
            "empty_cashbox",
            self._api.empty_cashbox,
            [],
            "Move all stored notes to the cashbox",
        )

    def register(
        self,
        command_name: str,
        handler: CommandHandlerFunc,
        required_args: list[str],
        description: str = "",
        optional_args: Optional[list[str]] = None,
    ) -> None:
        """
        Register a command handler.

        Args:
            command_name: The name of the command.
            handler: The async handler function.
            required_args: List of required argument names.
            description: Human-readable description.
            optional_args: Arguments forwarded only when given.
        """
        self._commands[command_name] = CommandDefinition(
            name=command_name,
            handler=handler,
            required_args=required_args,
            optional_args=optional_args or [],
            description=description,
        )

    def get_available_commands(self) -> list[dict[str, Any]]:
        """Get list of available commands with their descriptions."""
        return [
            {
                "name": cmd.name,
                "required_args": cmd.required_args,
                "optional_args": cmd.optional_args,
                "description": cmd.description,
            }
            for cmd in self._commands.values()
        ]

    async def execute(self, command_data: dict[str, Any]) -> dict[str, Any]:
        """
        Execute a command based on command data.

        Args:
            command_data: Dictionary containing 'command', 'command_id', and 'data'.

        Returns:
            Response dictionary with execution result.
        """
        command = command_data.get("command")
        command_id = command_data.get("command_id")
        data = command_data.get("data", {}) or {}

        response = CommandResponse(command_id=command_id)

        if command not in self._commands:
            logger.warning(f"Unknown command: {command}")
            response.message = f"Unknown command: {command}"
            return response.to_dict()

        definition = self._commands[command]

        kwargs = {arg: data.get(arg) for arg in definition.required_args}
        missing = [arg for arg in definition.required_args if kwargs.get(arg) is None]
        if missing:
            response.message = f"Missing required arguments: {missing}"
            return response.to_dict()

        for arg in definition.optional_args:
            if data.get(arg) is not None:
                kwargs[arg] = data[arg]

        try:
            result = await definition.handler(**kwargs)
        except Exception as e:
            logger.error(f"Error executing command '{command}': {e}")
            response.message = f"Error: {e}"
            return response.to_dict()

        if isinstance(result, dict):
            response.success = result.get("success", False)
            response.message = result.get("message")
            response.data = result.get("data")
        else:
            response.success = True
            response.data = result

        return response.to_dict()
