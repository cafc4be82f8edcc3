"""
Typed field keys for every entity kind.

Each entity kind has its own field enumeration whose values are the column
names in the backing table, so predicates and sort keys never carry free-form
field strings.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Type, Union


class EntityKind(str, Enum):
    PRODUCT = "product"
    USER = "user"
    AUDIT_LOG = "audit_log"


class ProductField(str, Enum):
    ID = "id"
    NAME = "name"
    DESCRIPTION = "description"
    SKU = "sku"
    PRICE = "price"
    QUANTITY = "quantity"
    ACTIVE = "active"
    CATEGORY = "category"
    CREATED_AT = "created_at"
    UPDATED_AT = "updated_at"
    CREATED_BY = "created_by"
    UPDATED_BY = "updated_by"


class UserField(str, Enum):
    ID = "id"
    USERNAME = "username"
    FIRST_NAME = "first_name"
    LAST_NAME = "last_name"
    EMAIL = "email"
    PHONE = "phone"
    ROLE = "role"
    IS_ACTIVE = "is_active"
    LAST_LOGIN_DATE = "last_login_date"
    DELETED_AT = "deleted_at"
    DELETED_BY = "deleted_by"
    CREATED_AT = "created_at"
    UPDATED_AT = "updated_at"
    CREATED_BY = "created_by"
    UPDATED_BY = "updated_by"
    # Multi-valued, stored in user_permissions
    PERMISSIONS = "permissions"


class AuditLogField(str, Enum):
    ID = "id"
    USERNAME = "username"
    OPERATION = "operation"
    ENTITY_TYPE = "entity_type"
    ENTITY_ID = "entity_id"
    DESCRIPTION = "description"
    IP_ADDRESS = "ip_address"
    REQUEST_URI = "request_uri"
    HTTP_METHOD = "http_method"
    CHANGES = "changes"
    METADATA = "metadata"
    SUCCESS = "success"
    ERROR_MESSAGE = "error_message"
    CREATED_AT = "created_at"


FieldKey = Union[ProductField, UserField, AuditLogField]


class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"


@dataclass(frozen=True)
class SortKey:
    field: FieldKey
    direction: SortDirection = SortDirection.ASC


@dataclass(frozen=True)
class JoinedField:
    """A multi-valued field kept in a side table keyed by the owner's id."""

    table: str
    owner_column: str
    value_column: str


@dataclass(frozen=True)
class EntitySpec:
    """Storage layout of one entity kind."""

    kind: EntityKind
    table: str
    fields: Type[Enum]
    id_field: FieldKey
    timestamp_field: FieldKey
    joined: dict = field(default_factory=dict)

    def owns(self, key: Enum) -> bool:
        return isinstance(key, self.fields)

    def joined_field(self, key: Enum) -> Optional[JoinedField]:
        return self.joined.get(key)


ENTITY_SPECS: dict[EntityKind, EntitySpec] = {
    EntityKind.PRODUCT: EntitySpec(
        kind=EntityKind.PRODUCT,
        table="products",
        fields=ProductField,
        id_field=ProductField.ID,
        timestamp_field=ProductField.CREATED_AT,
    ),
    EntityKind.USER: EntitySpec(
        kind=EntityKind.USER,
        table="users",
        fields=UserField,
        id_field=UserField.ID,
        timestamp_field=UserField.CREATED_AT,
        joined={
            UserField.PERMISSIONS: JoinedField(
                table="user_permissions",
                owner_column="user_id",
                value_column="permission",
            ),
        },
    ),
    EntityKind.AUDIT_LOG: EntitySpec(
        kind=EntityKind.AUDIT_LOG,
        table="audit_logs",
        fields=AuditLogField,
        id_field=AuditLogField.ID,
        timestamp_field=AuditLogField.CREATED_AT,
    ),
}


def entity_spec(kind: EntityKind) -> EntitySpec:
    return ENTITY_SPECS[kind]
