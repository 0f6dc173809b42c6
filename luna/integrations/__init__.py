"""External services - Google OAuth and Sentry."""
