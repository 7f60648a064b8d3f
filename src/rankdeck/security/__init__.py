# Security helpers: session tokens, audit log, rate limiting.
