"""Exchange types, symbol normalization, rate limiting, websockets, heartbeats and adapter management."""