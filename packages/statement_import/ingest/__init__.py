"""Detection and table extraction (CSV, XLSX, PDF positional reconstruction)."""
