"""
Page capture pipeline components.

This package contains the pieces for walking a queue of pages in a live
browser, optionally scripting UI interactions on each page, and producing a
labelled screenshot, thumbnail and timing metadata per page.
"""
