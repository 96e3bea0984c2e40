"""OAuth 2.0 device authorization for the Qwen API.

See :class:`~qwen_auth.oauth.device_flow.QwenDeviceFlow`.
"""

from qwen_auth.oauth.browser import is_headless_environment, open_browser
from qwen_auth.oauth.device_flow import QwenDeviceFlow

__all__ = ["QwenDeviceFlow", "is_headless_environment", "open_browser"]
