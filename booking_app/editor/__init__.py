"""Form editor client: autosave coordinator and API session"""
