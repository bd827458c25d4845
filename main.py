"""
本地启动入口

    python main.py
    # 等价于 uvicorn knowledge_pipeline.main:app --reload

文档: http://localhost:8000/docs
"""

import os

import uvicorn

if __name__ == "__main__":
    uvicorn.run(
        "knowledge_pipeline.main:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8000")),
        reload=True,
    )
