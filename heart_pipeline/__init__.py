"""
Heart Disease SQLite ETL Package

Modules:
    bronze.py       - Loads the raw heart-disease CSV into the heart_raw staging table.
    silver.py       - Casts, deduplicates and indexes staging rows into the heart table.
    gold.py         - Age band view, KPI queries and profiling over the heart table.
    run_pipeline.py - Orchestrates the full refresh and exports KPI results.

Version: 1.0.0
"""

__version__ = "1.0.0"
