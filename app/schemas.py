"""Pydantic schemas for API request/response validation

Request models accept both snake_case and the camelCase names used by the
web client (``apiKey``, ``userInput``, ``dbConfig``, ...). Response ids are
strings; datetimes render as ISO-8601.
"""

from datetime import datetime
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import (
    BaseModel, BeforeValidator, ConfigDict, EmailStr, Field, TypeAdapter, ValidationError,
)

from app.exceptions import InvalidConfigError

# 64-bit ids leave the API as strings
IdStr = Annotated[str, BeforeValidator(lambda v: str(v))]

SECRET_MASK = "********"


def mask_secret(value: Optional[str], visible: int = 4) -> Optional[str]:
    """Keep the last few characters so users can tell keys apart"""
    if not value:
        return value
    if len(value) <= visible * 2:
        return SECRET_MASK
    return f"{SECRET_MASK}{value[-visible:]}"


class RequestModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class MessageResponse(BaseModel):
    message: str


class IdRequest(RequestModel):
    """Body of the DELETE routes"""
    id: Optional[int] = None


# ============ User Schemas ============

class SignupRequest(RequestModel):
    email: EmailStr
    password: str = Field(min_length=6)
    fname: str = Field(min_length=1, max_length=100)
    lname: str = Field(min_length=1, max_length=100)


class UserLogin(RequestModel):
    email: str
    password: str


class GoogleLogin(RequestModel):
    id_token: str = Field(alias="idToken", min_length=1)


class UserResponse(BaseModel):
    id: IdStr
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    name: Optional[str] = None
    image: Optional[str] = None
    is_active: bool
    login_ts: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserResponse


# ============ API Key Schemas ============

class ApiKeyCreate(RequestModel):
    provider: Optional[str] = None
    api_key: Optional[str] = Field(None, alias="apiKey")


class ApiKeyValidate(RequestModel):
    provider: str = "openai"
    # Omit to validate the key already stored for the provider
    api_key: Optional[str] = Field(None, alias="apiKey")


class ApiKeyValidateResponse(BaseModel):
    valid: bool
    error: Optional[str] = None


class ApiKeyResponse(BaseModel):
    id: IdStr
    user_id: IdStr
    provider: str
    key_preview: Optional[str] = None
    created_by: Optional[str] = None
    modified_by: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_key(cls, key) -> "ApiKeyResponse":
        return cls(
            id=key.id,
            user_id=key.user_id,
            provider=key.provider,
            key_preview=mask_secret(key.api_key),
            created_by=key.created_by,
            modified_by=key.modified_by,
            created_at=key.created_at,
            updated_at=key.updated_at,
        )


# ============ Notification Credential Schemas ============

class TelegramCredentials(RequestModel):
    type: Literal["telegram"] = "telegram"
    bot_token: str = Field(alias="botToken", min_length=1)
    chat_id: Annotated[str, BeforeValidator(lambda v: str(v))] = Field(alias="chatId")


class EmailCredentials(RequestModel):
    type: Literal["email"] = "email"
    email: EmailStr
    password: str = Field(min_length=1)


NotificationCredentials = Annotated[
    Union[TelegramCredentials, EmailCredentials],
    Field(discriminator="type"),
]

_credentials_adapter = TypeAdapter(NotificationCredentials)


def parse_credentials(data: Any) -> Union[TelegramCredentials, EmailCredentials]:
    """
    Validate a notification credential blob.

    Blobs written without a ``type`` tag are told apart by shape: a bot token
    plus a chat id is Telegram, anything else is email.
    """
    if not isinstance(data, dict):
        raise InvalidConfigError("Credentials must be an object")
    data = dict(data)
    if "type" not in data:
        is_telegram = ("botToken" in data or "bot_token" in data) and ("chatId" in data or "chat_id" in data)
        data["type"] = "telegram" if is_telegram else "email"
    try:
        return _credentials_adapter.validate_python(data)
    except ValidationError as e:
        fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in e.errors())
        raise InvalidConfigError(f"Invalid {data['type']} credentials: check {fields}") from e


def dump_credentials(creds: Union[TelegramCredentials, EmailCredentials]) -> dict:
    return creds.model_dump(by_alias=True)


def public_credentials(creds: Union[TelegramCredentials, EmailCredentials]) -> dict:
    """Credential blob with its secret masked, for responses"""
    data = dump_credentials(creds)
    if isinstance(creds, TelegramCredentials):
        data["botToken"] = mask_secret(creds.bot_token)
    else:
        data["password"] = SECRET_MASK
    return data


class CredentialCreate(RequestModel):
    credentials: Optional[Dict[str, Any]] = None


class CredentialResponse(BaseModel):
    id: IdStr
    user_id: IdStr
    credential_type: str
    credentials: Dict[str, Any]
    created_by: Optional[str] = None
    modified_by: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_credential(cls, cred) -> "CredentialResponse":
        return cls(
            id=cred.id,
            user_id=cred.user_id,
            credential_type=cred.credential_type,
            credentials=public_credentials(parse_credentials(cred.credentials)),
            created_by=cred.created_by,
            modified_by=cred.modified_by,
            created_at=cred.created_at,
            updated_at=cred.updated_at,
        )


class CredentialVerifyResponse(BaseModel):
    valid: bool
    bot_username: Optional[str] = None
    error: Optional[str] = None


# ============ Database Connection Schemas ============

class DatabaseTypeResponse(BaseModel):
    id: str
    name: str
    description: str
    default_port: str
    success_message: str
    supports_schema: bool


class TestConnectionRequest(RequestModel):
    db_type: Optional[str] = Field(None, alias="dbType")
    db_config: Optional[Dict[str, Any]] = Field(None, alias="dbConfig")


class TestConnectionResponse(BaseModel):
    success: bool
    message: str


class GetSchemaRequest(RequestModel):
    db_type: Optional[str] = Field(None, alias="dbType")
    db_config: Optional[Dict[str, Any]] = Field(None, alias="dbConfig")


class TableSchema(BaseModel):
    name: str
    columns: List[str]


class SchemaResponse(BaseModel):
    tables: List[TableSchema]
    relationships: Dict[str, Dict[str, Dict[str, str]]]


# ============ Query Schemas ============

class DbSchema(RequestModel):
    tables: Optional[Dict[str, Any]] = None
    relationships: Optional[Dict[str, Any]] = None


class GenerateQueryRequest(RequestModel):
    user_input: Optional[str] = Field(None, alias="userInput")
    project_id: Optional[int] = Field(None, alias="projectId")
    db_schema: Optional[DbSchema] = Field(None, alias="dbSchema")
    db_type: Optional[str] = Field(None, alias="dbType")


class GenerateQueryResponse(BaseModel):
    query: str


class ExecuteQueryRequest(RequestModel):
    query: Optional[str] = None
    project_id: Optional[int] = Field(None, alias="projectId")
    db_type: Optional[str] = Field(None, alias="dbType")
    db_config: Optional[Dict[str, Any]] = Field(None, alias="dbConfig")


class ExecuteQueryResponse(BaseModel):
    rows: List[Dict[str, Any]]
    fields: List[str]


# ============ Project Schemas ============

class ProjectCreate(RequestModel):
    project_name: Optional[str] = Field(None, alias="projectName")
    db_type: Optional[str] = Field(None, alias="dbType")
    db_credential: Optional[Dict[str, Any]] = Field(None, alias="dbCredential")
    selected_tables: Optional[Dict[str, Any]] = Field(None, alias="selectedTables")
    table_relationships: Optional[Dict[str, Any]] = Field(None, alias="tableRelationships")
    connection_test_successful: bool = Field(False, alias="connectionTestSuccessful")


def public_db_credential(blob: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Stored connection parameters with secrets masked"""
    data = dict(blob or {})
    for key in ("password", "secretAccessKey", "serviceAccountKey"):
        if data.get(key):
            data[key] = SECRET_MASK
    return data


class ProjectResponse(BaseModel):
    id: IdStr
    user_id: IdStr
    project_name: str
    db_type: str
    db_credential: Dict[str, Any]
    selected_tables: Optional[Dict[str, Any]] = None
    table_relationships: Optional[Dict[str, Any]] = None
    connection_status: str
    created_by: Optional[str] = None
    modified_by: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_project(cls, project) -> "ProjectResponse":
        return cls(
            id=project.id,
            user_id=project.user_id,
            project_name=project.project_name,
            db_type=project.db_type,
            db_credential=public_db_credential(project.db_credential),
            selected_tables=project.selected_tables,
            table_relationships=project.table_relationships,
            connection_status=project.connection_status,
            created_by=project.created_by,
            modified_by=project.modified_by,
            created_at=project.created_at,
            updated_at=project.updated_at,
        )


class ProjectListResponse(BaseModel):
    count: int
    projects: List[ProjectResponse]


class CheckConnectionResponse(BaseModel):
    success: bool
    message: str
    connection_status: str


class AskRequest(RequestModel):
    question: Optional[str] = Field(None, alias="userInput")


class AskResponse(BaseModel):
    query: str
    fields: List[str]
    rows: List[Dict[str, Any]]
    answer: str


# ============ Agent Schemas ============

class AgentCreate(RequestModel):
    agent_name: Optional[str] = Field(None, alias="agentName")
    project_id: Optional[int] = Field(None, alias="projectId")
    credential_id: Optional[int] = Field(None, alias="credentialId")
    is_active: bool = Field(True, alias="isActive")


class AgentUpdate(RequestModel):
    id: Optional[int] = None
    is_active: Optional[bool] = Field(None, alias="isActive")


class AgentProject(BaseModel):
    id: IdStr
    project_name: str
    db_type: str
    connection_status: str

    class Config:
        from_attributes = True


class AgentCredential(BaseModel):
    id: IdStr
    credential_type: str

    class Config:
        from_attributes = True


class AgentResponse(BaseModel):
    id: IdStr
    user_id: IdStr
    agent_name: str
    project_id: IdStr
    credential_id: IdStr
    is_active: bool
    created_by: Optional[str] = None
    modified_by: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    project: Optional[AgentProject] = None
    credential: Optional[AgentCredential] = None

    class Config:
        from_attributes = True


class AgentDeleteResponse(BaseModel):
    success: bool
    message: str
