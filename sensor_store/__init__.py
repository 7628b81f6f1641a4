"""
Agricultural Sensor Storage

Tiered storage for IoT sensor readings from farmlands. Presents one CRUD/query
interface over DuckDB, SQLite and flat JSON files, choosing the first engine
that works in the current runtime.
"""

__version__ = "1.0.0"
