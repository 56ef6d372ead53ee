from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Notice:
    """Transient, dismissible message shown to the user after an operation."""

    title: str
    description: str = ''
    variant: str = 'default'

    @classmethod
    def success(cls, description: str, title: str = 'Success') -> 'Notice':
        return cls(title=title, description=description)

    @classmethod
    def error(cls, description: str, title: str = 'Error') -> 'Notice':
        return cls(title=title, description=description, variant='destructive')

    def as_dict(self) -> dict:
        return {'title': self.title, 'description': self.description, 'variant': self.variant}
