"""
Base Factory Class for test data generation

Every model factory persists through the Flask-SQLAlchemy session of the
current app context and commits, so rows are visible to requests made with
the test client.
"""

import factory
from factory.alchemy import SQLAlchemyModelFactory
from faker import Faker

from extensions import db

fake = Faker('en_US')


class BaseFactory(SQLAlchemyModelFactory):
    """Base factory class for all model factories"""

    class Meta:
        abstract = True
        sqlalchemy_session_factory = lambda: db.session  # noqa: E731
        sqlalchemy_session_persistence = 'commit'


def unique_email(n):
    return f'subscriber{n}@example.com'


class FactoryTraits:
    """Common value helpers shared by the factories"""

    @staticmethod
    def metadata():
        return {
            'company': fake.company(),
            'city': fake.city(),
        }

    @staticmethod
    def html_part():
        return '<html><body><h1>Hello {{ name }}</h1><a href="{{ unsubscribe_url }}">Unsubscribe</a></body></html>'


__all__ = ['BaseFactory', 'FactoryTraits', 'fake', 'factory', 'unique_email']
