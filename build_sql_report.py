#!/usr/bin/env python3
"""
Run every .sql script in a folder and write the results into one Excel report.

Usage: python build_sql_report.py [--sql-folder-path ./SQL] [--excel-file-path ./SQL_Report.xlsx] [--create-new-file]
"""

from sql_report.cli import main

if __name__ == "__main__":
    raise SystemExit(main())
