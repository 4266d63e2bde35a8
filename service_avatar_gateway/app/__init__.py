"""
Avatar Gateway service package.

The gateway fronts the hosted avatar conversation API, handling:
- Token minting: short-lived HS256 tokens signed with the app key
- Resilient upstream calls: retries, backoff and a shared circuit breaker
- Graceful degradation: fallback results when the upstream is down
- Rate limiting per client and route family

Structure:
- app.main: FastAPI app, routes, and middleware wiring.
- app.auth: Token signer.
- app.adapters: Connection profiles and the upstream client.
- app.ratelimit: Sliding window limiter and middleware.
- app.domain: Latency echo, conversation descriptors and catalogs.
"""
