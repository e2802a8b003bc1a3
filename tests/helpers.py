from __future__ import annotations

import base64
import json
from typing import Any

ACCESS_KEY_ID = "AWS_ACCESS_KEY_ID-value"
SECRET_ACCESS_KEY = "AWS_SECRET_ACCESS_KEY-value"
REGION = "eu-west-1"


def encode_header(payload: Any) -> str:
    return base64.b64encode(json.dumps(payload).encode("utf-8")).decode("ascii")


def account(access_key_id: str = ACCESS_KEY_ID, secret_access_key: str = SECRET_ACCESS_KEY) -> dict[str, Any]:
    return {"aws_access_key_id": access_key_id, "aws_secret_access_key": secret_access_key}
