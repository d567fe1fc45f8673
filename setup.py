from setuptools import setup

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

setup(
    name="mymadrassa-admin",
    version="1.0.0",
    description="myMadrassa school administration API",
    long_description=long_description,
    long_description_content_type="text/markdown",
    py_modules=[
        'accounts',
        'admin_api',
        'app',
        'auth',
        'build',
        'client',
        'config',
        'crud',
        'dashboard',
        'exceptions',
        'forms',
        'gunicorn_config',
        'health',
        'listing',
        'messaging',
        'models',
        'report_pdf',
        'reports',
        'school_settings',
        'security',
        'wsgi',
    ],
    include_package_data=True,
    install_requires=[
        'Flask>=2.3.3',
        'Flask-SQLAlchemy>=3.0.5',
        'Flask-WTF>=1.2.1',
        'python-dotenv>=1.0.0',
        'SQLAlchemy>=2.0.43',
        'WTForms>=3.0.1',
        'Werkzeug>=2.3.7',
        'email-validator>=2.1.0',
        'gunicorn>=21.2.0',
        'psycopg2-binary>=2.9.9',
        'bcrypt>=4.0.1',
        'fpdf2>=2.7.6',
        'requests>=2.31.0',
    ],
    extras_require={
        'test': [
            'pytest>=7.4.3',
        ],
    },
    python_requires='>=3.9',
    classifiers=[
        "Programming Language :: Python :: 3",
        "Framework :: Flask",
        "Operating System :: OS Independent",
    ],
    entry_points={
        'console_scripts': [
            'mymadrassa=wsgi:main',
        ],
    },
)
