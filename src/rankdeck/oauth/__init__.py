# Google OAuth connection lifecycle: state tokens, authorization URL,
# popup/redirect coordination, code exchange, stored connections, refresh.
# Created: 2026-10-01
