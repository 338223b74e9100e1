from datetime import datetime, UTC

from sqlalchemy import Column, Integer, String, Text, DateTime, Boolean, ForeignKey, Table
from sqlalchemy.orm import relationship

from .database import Base
from .hashing import hash_password


# reserved roles created by the bootstrap seed
ADMIN_ROLE_ID = 1
AUTHOR_ROLE_ID = 2
READER_ROLE_ID = 3
RESERVED_ROLE_IDS = (ADMIN_ROLE_ID, AUTHOR_ROLE_ID, READER_ROLE_ID)


def utcnow() -> datetime:
    # naive UTC, the way timestamps are stored
    return datetime.now(UTC).replace(tzinfo=None)


# table for many to many relationship between User and Role
user_roles = Table(
    'user_roles', Base.metadata,
    Column('user_id', Integer, ForeignKey('users.id'), primary_key=True),
    Column('role_id', Integer, ForeignKey('roles.id'), primary_key=True),
)


# table for many to many relationship between Role and Permission
role_permissions = Table(
    'role_permissions', Base.metadata,
    Column('role_id', Integer, ForeignKey('roles.id'), primary_key=True),
    Column('permission_id', Integer, ForeignKey('permissions.id'), primary_key=True),
)


class User(Base):
    __tablename__ = 'users'
    id = Column(Integer, primary_key=True, index=True)
    firstname = Column(String(50), nullable=False)
    lastname = Column(String(50), nullable=False)
    email = Column(String, unique=True, index=True, nullable=False)
    password = Column(String, nullable=False)  # bcrypt hash, never plaintext
    roles = relationship('Role', secondary=user_roles, back_populates='users', order_by='Role.id')
    books = relationship('Book', back_populates='author')
    loans = relationship('Loan', back_populates='user')

    def set_password(self, password: str) -> None:
        """Hash and store ``password``; the only way a password reaches a row."""
        self.password = hash_password(password)

    @property
    def role_ids(self):
        return [role.id for role in self.roles]


class Role(Base):
    __tablename__ = 'roles'
    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, unique=True, nullable=False)
    permissions = relationship(
        'Permission', secondary=role_permissions, back_populates='roles', order_by='Permission.id'
    )
    users = relationship('User', secondary=user_roles, back_populates='roles')


class Permission(Base):
    __tablename__ = 'permissions'
    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    method = Column(String(10), nullable=False)
    url = Column(String, nullable=False)  # regular expression matched against the request path
    roles = relationship('Role', secondary=role_permissions, back_populates='permissions')


class Book(Base):
    __tablename__ = 'books'
    id = Column(Integer, primary_key=True, index=True)
    title = Column(String, unique=True, nullable=False)
    isbn = Column(String, unique=True, nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    resume = Column(Text, nullable=False)
    is_valid = Column(Boolean, nullable=False, default=False)
    published_at = Column(DateTime, nullable=True)
    author_id = Column(Integer, ForeignKey('users.id'), nullable=False)
    author = relationship('User', back_populates='books')
    loans = relationship('Loan', back_populates='book')


class Loan(Base):
    __tablename__ = 'loans'
    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey('users.id'), nullable=False, index=True)
    book_id = Column(Integer, ForeignKey('books.id'), nullable=False, index=True)
    loan_at = Column(DateTime, nullable=False)
    supposed_return_at = Column(DateTime, nullable=False)
    return_at = Column(DateTime, nullable=True)  # null while the loan is outstanding
    user = relationship('User', back_populates='loans')
    book = relationship('Book', back_populates='loans')
