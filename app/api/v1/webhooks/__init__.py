"""Billing webhook endpoints"""
