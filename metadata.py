"""Annotations a running test attaches to its own result.

Test code calls these helpers while it runs; the integration layer calls
``consume()`` once the test finishes and applies the collected message to the
``TestResult`` it builds. Messages are scoped to the current context, so
concurrent asyncio tasks do not see each other's metadata.
"""
from __future__ import annotations

import dataclasses
import logging
import mimetypes
from contextvars import ContextVar
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union

from test_types import Attachment, TestResult

logger = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "application/octet-stream"


@dataclass
class MetadataMessage:
    """Metadata collected for the test currently running."""

    ids: List[int] = field(default_factory=list)
    title: Optional[str] = None
    fields: Dict[str, str] = field(default_factory=dict)
    parameters: Dict[str, str] = field(default_factory=dict)
    attachments: List[Attachment] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not (self.ids or self.title or self.fields or self.parameters or self.attachments)

    def apply(self, result: TestResult) -> TestResult:
        """Return a copy of ``result`` enriched with this metadata."""
        changes = {}
        if self.ids:
            changes["testops_ids"] = tuple(self.ids)
        if self.title:
            changes["title"] = self.title
        if self.fields:
            changes["fields"] = {**result.fields, **self.fields}
        if self.parameters:
            changes["params"] = {**result.params, **self.parameters}
        if self.attachments:
            changes["attachments"] = result.attachments + tuple(self.attachments)
        return dataclasses.replace(result, **changes) if changes else result


_current: ContextVar[Optional[MetadataMessage]] = ContextVar("relay_metadata", default=None)


def _message() -> MetadataMessage:
    message = _current.get()
    if message is None:
        message = MetadataMessage()
        _current.set(message)
    return message


def set_id(value: Union[int, str, Sequence[Union[int, str]]]) -> None:
    """Link the test to one or more test cases by id."""
    values = value if isinstance(value, (list, tuple)) else [value]
    for item in values:
        try:
            _message().ids.append(int(item))
        except (TypeError, ValueError):
            logger.warning(f"Test case ID {item!r} should be a number")


def set_title(value: str) -> None:
    _message().title = value


def set_fields(value: Dict[str, str]) -> None:
    _message().fields.update({str(k): str(v) for k, v in value.items()})


def set_parameters(value: Dict[str, str]) -> None:
    _message().parameters.update({str(k): str(v) for k, v in value.items()})


def attach(
    name: Optional[str] = None,
    paths: Optional[Union[str, Path, Sequence[Union[str, Path]]]] = None,
    content: Optional[Union[bytes, str]] = None,
    content_type: Optional[str] = None,
) -> None:
    """Attach files by path, or an in-memory payload."""
    if paths is not None:
        files = paths if isinstance(paths, (list, tuple)) else [paths]
        for file in files:
            path = Path(file)
            guessed, _ = mimetypes.guess_type(path.name)
            _message().attachments.append(
                Attachment(
                    file_name=path.name,
                    content_type=content_type or guessed or DEFAULT_CONTENT_TYPE,
                    file_path=path,
                )
            )
        return

    if content is None:
        logger.warning("attach() called without paths or content")
        return

    payload = content.encode("utf-8") if isinstance(content, str) else content
    _message().attachments.append(
        Attachment(
            file_name=name or "attachment",
            content_type=content_type or DEFAULT_CONTENT_TYPE,
            content=payload,
        )
    )


def consume() -> MetadataMessage:
    """Return the collected metadata and start a fresh message."""
    message = _current.get() or MetadataMessage()
    _current.set(None)
    return message
