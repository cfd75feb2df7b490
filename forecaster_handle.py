#!/usr/bin/env python3
"""
Monthly handle forecasting with model selection and event estimation.

Usage
-----
    python forecaster_handle.py --help
    python forecaster_handle.py --series-csv data/handle.csv --horizon 14
    python forecaster_handle.py --series-csv data/handle.csv --horizon 14 \
        --event 2023-02:1200000 --event 2024-02:1450000 --event-period 2025-02

The implementation lives in handle_forecaster_src/ (see main.py there).
"""

if __name__ == "__main__":
    from handle_forecaster_src.main import main
    main()
