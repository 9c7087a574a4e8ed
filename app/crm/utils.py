from __future__ import annotations

from typing import Any

from flask import request


def request_payload() -> dict[str, Any]:
    """JSON body if one was sent, otherwise form fields."""
    data = request.get_json(silent=True)
    if isinstance(data, dict):
        return data
    return request.form.to_dict()
