import os

from funil import create_app
from funil.database import init_db

app = create_app()

# Initialize Database (Create tables and seed defaults if needed)
init_db(app)

if __name__ == '__main__':
    app.run(debug=os.environ.get('FLASK_DEBUG', '1') == '1', port=int(os.environ.get('PORT', 5000)))
