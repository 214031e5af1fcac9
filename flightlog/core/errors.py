class FlightlogError(Exception):
    """Base class for errors raised by the flight history service."""


class AirportDirectoryError(FlightlogError):
    """The airport reference data could not be loaded."""


class StructuredOutputError(FlightlogError):
    """The model returned content that does not match the requested schema."""

    def __init__(self, message: str, content: str = ""):
        super().__init__(message)
        self.content = content


class UnknownToolError(FlightlogError):
    """The model asked for a tool that is not in the catalogue."""

    def __init__(self, tool_name: str):
        super().__init__(f"Unknown tool: {tool_name}")
        self.tool_name = tool_name


class ToolArgumentsError(FlightlogError):
    """The model called a known tool with arguments that fail validation."""

    def __init__(self, tool_name: str, details: str):
        super().__init__(f"Invalid arguments for {tool_name}: {details}")
        self.tool_name = tool_name
        self.details = details
