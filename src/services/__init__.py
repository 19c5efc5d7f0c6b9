"""Services package - Business logic layer for the storefront catalog.

This package contains all service modules that provide business logic
and database operations for the catalog core.

Architecture:
- Services: Stateless functions organized by concern (graph, versioning, snapshots)
- Transactions: Managed via session_scope() / run_in_transaction()
- Exceptions: Consistent error handling via ServiceError hierarchy
- Validation: Input validation before database operations

Service Modules:
- sku_codec: Encode, decode and version product SKUs
- component_graph_service: Product -> component edge store and its invariants
- order_usage_service: Which products stored orders reference
- version_service: Edit-in-place vs. fork policy and product lifecycle
- snapshot_service: Frozen, priced component trees for order line items
- catalog_service: Public entry point for admin edits and checkout

Infrastructure:
- exceptions: Custom exception classes for service layer errors
- database: Session management and database utilities
- logging_utils: Structured operation logging
- dto: Result containers
"""
