from sqlalchemy.orm import declarative_base

# 所有ORM模型的基类
Base = declarative_base()
