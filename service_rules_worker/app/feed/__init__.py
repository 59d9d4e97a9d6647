"""
Change-feed package: ListWatch delivers the children of a store collection.
"""
