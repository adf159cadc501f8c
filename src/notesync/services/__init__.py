"""Service layer: synchronization core, migration, projections and export."""
