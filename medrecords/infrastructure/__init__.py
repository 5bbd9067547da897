"""Infrastructure layer for MedRecords: configuration, logging, audit and reports."""
