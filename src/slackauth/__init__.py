"""
slackauth - Slack session credential acquisition and rotation.

Credential sources:
1. config   - token/cookie supplied via settings or environment
2. file     - persisted token file (~/.slack-mcp-tokens.json)
3. chrome   - session token + cookie recovered from a logged-in Chrome profile
4. refresh  - fresh token re-derived over the network from the session cookie
5. oauth    - official OAuth v2 (PKCE) user token
"""

__version__ = "1.0.0"
__author__ = "slackauth team"
