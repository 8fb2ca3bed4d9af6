"""Pure domain rules (client types, sign-up payloads, normalization)."""
