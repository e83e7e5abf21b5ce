"""REST API package"""
