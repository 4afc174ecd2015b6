"""Invoice editing backend: line items, totals and invoice state."""
