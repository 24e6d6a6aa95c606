"""
Bourbon Buddy

A spirits collection server: track bottles, look up bottle artwork and
distillery details, upload tasting videos to Mux and host live tasting
rooms with chat and polls.

Repository Structure:
- shared/: Models, database, config, security and the HTTP/SocketIO API
- collection/: Bottle validation, reference catalog and collection CRUD
- video/: Mux client, webhook processing and status reconciliation
- discovery/: Bottle image search, web search and the image proxy
- live/: Live tasting rooms and stream interactions
- admin_tool/: Setup and maintenance CLI
- tests/: Unit and integration tests

License: MIT
"""
