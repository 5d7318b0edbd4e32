"""Loading, quarantine and publishing for the text search"""
