"""
Shape checks for MCP payloads (tool results, catalog listings, JSON-RPC envelopes).
"""

import dataclasses
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional


@dataclass
class ShapeCheck:
    """Outcome of a shape check; nested errors point at offending fields."""

    valid: bool
    field: Optional[str] = None
    message: Optional[str] = None
    errors: List["ShapeCheck"] = dataclasses.field(default_factory=list)

    def describe(self) -> List[str]:
        """Flatten the check into human readable lines."""
        lines = []
        if not self.valid and self.message:
            prefix = f"{self.field}: " if self.field else ""
            lines.append(f"{prefix}{self.message}")
        for error in self.errors:
            lines.extend(error.describe())
        return lines


def _ok() -> ShapeCheck:
    return ShapeCheck(valid=True)


def _fail(message: str, field: Optional[str] = None) -> ShapeCheck:
    return ShapeCheck(valid=False, field=field, message=message)


def _collect(errors: List[ShapeCheck]) -> ShapeCheck:
    return ShapeCheck(valid=not errors, errors=errors)


def _check_text(item: Dict[str, Any]) -> ShapeCheck:
    if "text" not in item:
        return _fail("Text content must have a text field", "text")
    if not isinstance(item["text"], str):
        return _fail("Text field must be a string", "text")
    return _ok()


def _check_image(item: Dict[str, Any]) -> ShapeCheck:
    if "data" not in item and "url" not in item:
        return _fail("Image content must have either data or url field")
    if "mimeType" in item and not isinstance(item["mimeType"], str):
        return _fail("mimeType must be a string", "mimeType")
    return _ok()


def _check_embedded_resource(item: Dict[str, Any]) -> ShapeCheck:
    resource = item.get("resource")
    if resource is None:
        return _fail("Resource content must have a resource field", "resource")
    if not isinstance(resource, dict):
        return _fail("Resource must be an object", "resource")
    if "uri" not in resource:
        return _fail("Resource must have a uri field", "resource.uri")
    return _ok()


def _check_resource_link(item: Dict[str, Any]) -> ShapeCheck:
    if "uri" not in item:
        return _fail("Resource link must have a uri field", "uri")
    if not isinstance(item["uri"], str):
        return _fail("URI must be a string", "uri")
    return _ok()


_CONTENT_CHECKS: Dict[str, Callable[[Dict[str, Any]], ShapeCheck]] = {
    "text": _check_text,
    "image": _check_image,
    "audio": _check_image,
    "resource": _check_embedded_resource,
    "resource_link": _check_resource_link,
}


def validate_content_item(item: Any, strict: bool = False) -> ShapeCheck:
    """Check one entry of a tool result's content array."""
    if not isinstance(item, dict):
        return _fail("Content item must be an object")
    if "type" not in item:
        return _fail("Content item must have a type field", "type")
    check = _CONTENT_CHECKS.get(item["type"])
    if check is None:
        if strict:
            return _fail(f"Unknown content type: {item['type']}", "type")
        return _ok()
    return check(item)


def validate_tool_response(response: Any, strict: bool = False) -> ShapeCheck:
    """
    Check a tools/call result: a content array and/or an isError flag.

    Args:
        response: The tool result payload
        strict: Reject content item types this module does not know

    Returns:
        ShapeCheck describing every problem found
    """
    if not isinstance(response, dict):
        return _fail("Response is missing or not an object")

    errors: List[ShapeCheck] = []
    if "content" not in response and "isError" not in response:
        errors.append(
            _fail("Response must have either content or isError field", "content/isError")
        )

    if "content" in response:
        content = response["content"]
        if not isinstance(content, list):
            errors.append(_fail("Content must be an array", "content"))
        else:
            for index, item in enumerate(content):
                item_check = validate_content_item(item, strict=strict)
                if not item_check.valid:
                    item_check.field = f"content[{index}]" + (
                        f".{item_check.field}" if item_check.field else ""
                    )
                    errors.append(item_check)

    if "isError" in response and not isinstance(response["isError"], bool):
        errors.append(_fail("isError must be a boolean", "isError"))

    return _collect(errors)


def _validate_listing(
    response: Any,
    key: str,
    check_entry: Callable[[Any], List[ShapeCheck]],
) -> ShapeCheck:
    if not isinstance(response, dict):
        return _fail("Response is missing or not an object")
    if key not in response:
        return _collect([_fail(f"Response must have a {key} field", key)])
    entries = response[key]
    if not isinstance(entries, list):
        return _collect([_fail(f"{key.capitalize()} must be an array", key)])

    errors: List[ShapeCheck] = []
    for index, entry in enumerate(entries):
        for problem in check_entry(entry):
            problem.field = f"{key}[{index}]" + (f".{problem.field}" if problem.field else "")
            errors.append(problem)
    return _collect(errors)


def _named_entry(kind: str, entry: Any) -> List[ShapeCheck]:
    if not isinstance(entry, dict):
        return [_fail(f"{kind} must be an object")]
    if "name" not in entry:
        return [_fail(f"{kind} must have a name field", "name")]
    if not isinstance(entry["name"], str):
        return [_fail(f"{kind} name must be a string", "name")]
    return []


def _tool_entry(entry: Any) -> List[ShapeCheck]:
    problems = _named_entry("Tool", entry)
    if problems:
        return problems
    if "description" not in entry:
        problems.append(_fail("Tool must have a description field", "description"))
    schema = entry.get("inputSchema")
    if schema is not None and not isinstance(schema, dict):
        problems.append(_fail("Input schema must be an object", "inputSchema"))
    return problems


def _resource_entry(entry: Any) -> List[ShapeCheck]:
    if not isinstance(entry, dict):
        return [_fail("Resource must be an object")]
    problems = []
    if "uri" not in entry:
        problems.append(_fail("Resource must have a uri field", "uri"))
    elif not isinstance(entry["uri"], str):
        problems.append(_fail("Resource uri must be a string", "uri"))
    if "name" not in entry:
        problems.append(_fail("Resource must have a name field", "name"))
    return problems


def validate_list_tools_response(response: Any) -> ShapeCheck:
    return _validate_listing(response, "tools", _tool_entry)


def validate_list_resources_response(response: Any) -> ShapeCheck:
    return _validate_listing(response, "resources", _resource_entry)


def validate_list_prompts_response(response: Any) -> ShapeCheck:
    return _validate_listing(response, "prompts", lambda entry: _named_entry("Prompt", entry))


def validate_jsonrpc_envelope(message: Any) -> ShapeCheck:
    """Check the JSON-RPC 2.0 framing of a raw message."""
    if not isinstance(message, dict):
        return _fail("Message must be an object")

    errors: List[ShapeCheck] = []
    if message.get("jsonrpc") != "2.0":
        errors.append(_fail("Invalid JSON-RPC version", "jsonrpc"))
    if ("result" in message or "error" in message) and "id" not in message:
        errors.append(_fail("Response must have an id field", "id"))
    if "result" in message and "error" in message:
        errors.append(_fail("Response cannot have both result and error fields"))
    return _collect(errors)
