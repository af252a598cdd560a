"""
Cube Binder

Validation and assembly pipeline for statistical fact tables:
- Column classification (source assignment) with compensating rollback
- Dimension binding against date calendars, lookup tables, numeric formats,
  note codes and the shared reference-data taxonomy
- Cube assembly into a per-revision DuckDB file
- Capped dimension previews
- A runtime (`cube_binder.runtime.binder_runtime`) wiring configuration into
  logging, storage and the dimension service
"""

__version__ = "1.0.0"
__author__ = "Cube Binder"
