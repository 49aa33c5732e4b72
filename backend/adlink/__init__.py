"""
Ad platform account linking backend.

OAuth connection flows for Google Ads and Meta Ads, encrypted token
storage, and the endpoints that consume stored credentials.
"""
