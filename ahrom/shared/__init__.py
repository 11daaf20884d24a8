"""Helpers shared across routes and services"""
