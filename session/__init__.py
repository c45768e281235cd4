"""
Session orchestration: data model, dispatch, control surface and panel
"""
