"""Types for the upstream Grok web chat API.

Request shape (POST add_response.json):
    {"responses": [{"message": "...", "sender": 1, "fileAttachments": []}],
     "grokModelOptionId": "grok-3", "isDeepsearch": false, "isReasoning": false}

Response body: newline-delimited JSON, one event per line:
    {"result": {"sender": "ASSISTANT", "message": "Hel", "isThinking": false}}
    {"result": {"isSoftStop": true}}
"""

from typing import Any, Union

from typing_extensions import TypedDict


SENDER_USER = 1
SENDER_ASSISTANT = 2


class GrokResponseItem(TypedDict):
    """One replayed conversation turn in the upstream request."""
    message: str
    sender: int
    fileAttachments: list[Any]


class GrokRequest(TypedDict):
    """Body of the upstream add_response call."""
    responses: list[GrokResponseItem]
    grokModelOptionId: str
    isDeepsearch: bool
    isReasoning: bool


class GrokResult(TypedDict, total=False):
    """The ``result`` payload of one upstream event line.

    Attributes:
        sender: Numeric (1 user, 2 assistant) or string ("USER",
            "ASSISTANT") sender marker.
        message: Text fragment.
        isThinking: True while the model emits intermediate reasoning.
        isSoftStop: True on the end-of-turn marker event.
    """
    sender: Union[int, str]
    message: str
    isThinking: bool
    isSoftStop: bool


class GrokEvent(TypedDict, total=False):
    result: GrokResult
