"""Parsers for term spreadsheets and death record extracts"""
