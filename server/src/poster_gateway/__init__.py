"""Poster Gateway - host-routed OAuth gateway for the Studio and Poster apps"""
