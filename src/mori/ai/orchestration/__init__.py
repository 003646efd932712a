"""Tool-calling orchestration: conversation model, extractor and run loop."""

# Conversation model
from .types import (
    Role,
    Message,
    StepStatus,
    ToolStep,
    ConversationItem,
    ConversationHistory,
    ToolCall,
    ToolFailure,
    ToolExecutionResult,
)

# Tool call extraction
from .tool_call_parser import (
    ExtractionError,
    ExtractionResult,
    extract_tool_calls,
)

# Events
from .events import (
    StatusEvent,
    ToolCallEvent,
    ToolArgumentsEvent,
    ToolExecutingEvent,
    ToolResultEvent,
    ResponseChunkEvent,
    ResponseReplaceEvent,
    ErrorEvent,
    OrchestratorEvent,
    EventSink,
    EventChannel,
)

# Session state
from .session import (
    CancellationToken,
    RunCancelled,
    RunState,
    OrchestratorSession,
    RunOutcome,
)

from .message_builder import build_messages, format_tool_result

# Turn runner
from .runner import (
    TurnRunner,
    RunnerConfig,
    create_runner,
)

# Facade
from .orchestrator import ChatOrchestrator, EventCallback
from .event_log import ChatEventLogger

# Tool system
from .tools import (
    ToolRegistry,
    ToolSpec,
    Tool,
    SimpleTool,
    ToolCategory,
    ToolExecutor,
    ExecutorConfig,
    ToolExecutionError,
    UnknownToolError,
    DuplicateToolError,
    ToolNotFoundError,
)

__all__ = [
    # types.py
    "Role",
    "Message",
    "StepStatus",
    "ToolStep",
    "ConversationItem",
    "ConversationHistory",
    "ToolCall",
    "ToolFailure",
    "ToolExecutionResult",
    # tool_call_parser.py
    "ExtractionError",
    "ExtractionResult",
    "extract_tool_calls",
    # events.py
    "StatusEvent",
    "ToolCallEvent",
    "ToolArgumentsEvent",
    "ToolExecutingEvent",
    "ToolResultEvent",
    "ResponseChunkEvent",
    "ResponseReplaceEvent",
    "ErrorEvent",
    "OrchestratorEvent",
    "EventSink",
    "EventChannel",
    # session.py
    "CancellationToken",
    "RunCancelled",
    "RunState",
    "OrchestratorSession",
    "RunOutcome",
    # message_builder.py
    "build_messages",
    "format_tool_result",
    # runner.py
    "TurnRunner",
    "RunnerConfig",
    "create_runner",
    # orchestrator.py / event_log.py
    "ChatOrchestrator",
    "EventCallback",
    "ChatEventLogger",
    # tools
    "ToolRegistry",
    "ToolSpec",
    "Tool",
    "SimpleTool",
    "ToolCategory",
    "ToolExecutor",
    "ExecutorConfig",
    "ToolExecutionError",
    "UnknownToolError",
    "DuplicateToolError",
    "ToolNotFoundError",
]
