"""Peewee/SQLite persistence for the durable lease registry."""
