"""
Popup result channel.

When a flow runs in a popup window, the callback answers with a tiny HTML
page that posts the outcome to ``window.opener`` (same origin only) and
closes itself. Without an opener it falls back to a normal navigation.
"""

import json
from typing import Any, Dict, Optional

from oauth_broker.core.oauth.orchestrator import Outcome

MESSAGE_TYPE = "oauth_result"

_POPUP_TEMPLATE = """<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>OAuth</title></head>
<body>
<script>
(function () {
  var data = %s;
  if (window.opener) {
    window.opener.postMessage(data, window.location.origin);
    window.close();
  } else {
    window.location.href = data.redirect || '/';
  }
})();
</script>
</body>
</html>
"""

# Characters that could end the <script> block or break out of a JS string
_SCRIPT_ESCAPES = {
    "<": "\\u003c",
    ">": "\\u003e",
    "&": "\\u0026",
    "'": "\\u0027",
    "\u2028": "\\u2028",
    "\u2029": "\\u2029",
}


def build_popup_message(outcome: Outcome, redirect_url: Optional[str] = None) -> Dict[str, Any]:
    """``redirect_url`` is the absolute fallback target; defaults to the outcome's redirect path."""
    message: Dict[str, Any] = {
        "type": MESSAGE_TYPE,
        "provider": outcome.provider,
        "success": outcome.success,
        "action": outcome.action.value,
        "message": outcome.message,
    }
    if outcome.user is not None:
        message["user"] = outcome.user
    if outcome.is_new_user is not None:
        message["isNewUser"] = outcome.is_new_user
    redirect = redirect_url or outcome.redirect_target
    if redirect:
        message["redirect"] = redirect
    return message


def _script_safe_json(data: Dict[str, Any]) -> str:
    encoded = json.dumps(data, ensure_ascii=True)
    for char, escaped in _SCRIPT_ESCAPES.items():
        encoded = encoded.replace(char, escaped)
    return encoded


def render_popup_result(outcome: Outcome, redirect_url: Optional[str] = None) -> str:
    return _POPUP_TEMPLATE % _script_safe_json(build_popup_message(outcome, redirect_url))
