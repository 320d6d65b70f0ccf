"""
Tool registry for the chat agent: declared tools and their execution.

Maps plugin callables to Responses API function schemas and runs the
function calls the model requests.
"""

import inspect
import json
import logging
from typing import Any, Callable, Dict, List, NamedTuple, Optional, get_type_hints

logger = logging.getLogger(__name__)


def tool(name: Optional[str] = None, description: Optional[str] = None, **param_descriptions):
    """Attach tool metadata to a callable.

    Args:
        name: Tool name exposed to the model (defaults to the callable name)
        description: Tool description (defaults to the docstring)
        **param_descriptions: Per-parameter descriptions for the schema
    """

    def decorate(func):
        func.__tool_spec__ = {
            "name": name,
            "description": description,
            "params": param_descriptions,
        }
        return func

    return decorate


class ToolExecution(NamedTuple):
    """Outcome of one function call requested by the model."""

    call_id: str
    name: str
    arguments: Dict[str, Any]
    result: Any

    def as_input_items(self) -> List[Dict[str, Any]]:
        """Return the call and its output as Responses API input items."""
        return [
            {
                "type": "function_call",
                "call_id": self.call_id,
                "name": self.name,
                "arguments": json.dumps(self.arguments),
            },
            {
                "type": "function_call_output",
                "call_id": self.call_id,
                "output": json.dumps(self.result, ensure_ascii=False),
            },
        ]


def _json_type(param_type) -> str:
    if param_type is bool:
        return "boolean"
    if param_type is int:
        return "integer"
    if param_type is float:
        return "number"
    return "string"


def callable_to_tool_schema(
    callable_func: Callable, name: str, description: Optional[str] = None
) -> Dict[str, Any]:
    """
    Convert a Python callable (function or method) to a Responses API tool schema.

    Args:
        callable_func: The callable to convert
        name: Tool name
        description: Optional description

    Returns:
        Tool schema dictionary
    """
    sig = inspect.signature(callable_func)
    type_hints = get_type_hints(callable_func)
    spec = getattr(callable_func, "__tool_spec__", {})
    param_descriptions = spec.get("params", {})

    if description is None:
        doc = inspect.getdoc(callable_func)
        description = doc.strip().splitlines()[0] if doc else f"Execute {name}"

    schema = {
        "type": "function",
        "name": name,
        "description": description,
        "parameters": {"type": "object", "properties": {}, "required": []},
    }

    for param_name, param in sig.parameters.items():
        if param_name == "self":
            continue

        param_schema = {
            "type": _json_type(type_hints.get(param_name, str)),
            "description": param_descriptions.get(param_name, f"The {param_name} parameter"),
        }
        schema["parameters"]["properties"][param_name] = param_schema

        if param.default is inspect.Parameter.empty:
            schema["parameters"]["required"].append(param_name)

    return schema


class ToolRegistry:
    """Registry for managing tools and their schemas."""

    def __init__(self):
        self.tools: Dict[str, Callable] = {}  # name -> callable
        self.schemas: List[Dict[str, Any]] = []

    def register_callable(
        self,
        callable_func: Callable,
        name: Optional[str] = None,
        description: Optional[str] = None,
    ) -> None:
        """
        Register a callable and auto-generate its tool schema.

        Explicit arguments win over metadata attached with ``@tool``.
        """
        spec = getattr(callable_func, "__tool_spec__", {})
        tool_name = name or spec.get("name") or callable_func.__name__
        description = description or spec.get("description")
        schema = callable_to_tool_schema(callable_func, tool_name, description)

        self.tools[tool_name] = callable_func
        self.schemas.append(schema)

    def get_schemas(self) -> List[Dict[str, Any]]:
        return self.schemas

    def get_tool_names(self) -> List[str]:
        return list(self.tools.keys())

    def has_tool(self, name: str) -> bool:
        return name in self.tools

    async def execute_tool(self, name: str, args: Dict[str, Any]) -> Any:
        """
        Execute a registered tool by name.

        Raises:
            KeyError: If tool is not registered
        """
        if name not in self.tools:
            raise KeyError(f"Tool '{name}' not found in registry")

        callable_func = self.tools[name]

        if inspect.iscoroutinefunction(callable_func):
            return await callable_func(**args)
        else:
            return callable_func(**args)

    async def execute_function_call(self, item: Any) -> ToolExecution:
        """
        Execute a ``function_call`` output item from a Responses API stream.

        Failures never propagate: they are returned as an ``{"error": ...}``
        result so the model can carry on generating.
        """
        name = item.name
        args: Dict[str, Any] = {}

        if not self.has_tool(name):
            logger.info(f"TOOL ERROR: unknown tool {name}")
            return ToolExecution(item.call_id, name, args, {"error": f"Unknown tool: {name}"})

        try:
            args = json.loads(item.arguments or "{}")
            result = await self.execute_tool(name, args)
        except json.JSONDecodeError as e:
            logger.info(f"TOOL JSON ERROR: {name} - {str(e)}")
            result = {"error": f"Error parsing arguments: {str(e)}"}
        except Exception as e:
            logger.info(f"TOOL ERROR: {name} - {str(e)}")
            result = {"error": f"Error: {str(e)}"}

        return ToolExecution(item.call_id, name, args, result)
