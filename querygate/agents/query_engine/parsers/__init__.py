"""Parsers for document-store command strings."""
from .mongodb_command_parser import MongoCommand, has_command_prefix, parse_mongodb_command

__all__ = ['MongoCommand', 'has_command_prefix', 'parse_mongodb_command']
