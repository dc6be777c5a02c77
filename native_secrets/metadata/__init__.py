"""
Secret metadata — ownership, sharing, access requests and audit.

Modules:
    models  → the persisted NamespaceMetadata document
    policy  → has_access / can_approve / is_owner
    audit   → project(metadata), the derived audit trail
    engine  → MetadataEngine, load → authorize → mutate → persist → notify
"""
