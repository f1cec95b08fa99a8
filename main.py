import uvicorn
from vis_ssr.charts.app import app

settings = app.state.settings

if __name__ == "__main__":
    print(f"vis-ssr running at http://localhost:{settings.port}")
    uvicorn.run(app, host=settings.host, port=settings.port)
