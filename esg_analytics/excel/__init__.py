"""Workbook reading (header discovery) and report export."""
