import datetime

import sqlmodel

from arena.utils.misc import get_utc_now


class BaseModel(sqlmodel.SQLModel):
    created_at: datetime.datetime = sqlmodel.Field(
        default_factory=get_utc_now, sa_type=sqlmodel.DateTime(timezone=True)
    )
    updated_at: datetime.datetime = sqlmodel.Field(
        default_factory=get_utc_now,
        sa_type=sqlmodel.DateTime(timezone=True),
        sa_column_kwargs={"onupdate": get_utc_now},
    )
