import os.path

from setuptools import find_packages
from setuptools import setup

version_path = os.path.join(os.path.dirname(__file__), 'VERSION')
with open(version_path) as fh:
    version = fh.read().strip()

setup(name='tilesource',
      version=version,
      description='Fetch the features of map tiles from Elasticsearch and '
                  'PostGIS backends.',
      long_description=open('README.md').read(),
      long_description_content_type='text/markdown',
      classifiers=[
          # strings from http://pypi.python.org/pypi?%3Aaction=list_classifiers
          'Development Status :: 4 - Beta',
          'Environment :: Console',
          'Intended Audience :: Developers',
          'License :: OSI Approved :: MIT License',
          'Natural Language :: English',
          'Operating System :: POSIX :: Linux',
          'Programming Language :: Python :: 3',
          'Programming Language :: Python :: Implementation :: CPython',
          'Topic :: Scientific/Engineering :: GIS',
          'Topic :: Utilities',
      ],
      keywords='elasticsearch postgis tile map geojson',
      license='MIT',
      packages=find_packages(exclude=['ez_setup', 'examples', 'tests']),
      include_package_data=True,
      zip_safe=False,
      python_requires='>=3.8',
      install_requires=[
          'elasticsearch>=8,<9',
          'mercantile',
          'psycopg2-binary',
          'pygeohash',
          'PyYAML',
          'Shapely>=2.0',
          'statsd',
          'ujson>=5',
      ],
      extras_require=dict(
          test=[
              'mock',
              'pytest',
          ],
      ),
      test_suite='tests',
      tests_require=[
          'mock',
      ],
      entry_points=dict(
          console_scripts=[
              'tilesource = tilesource.command:main',
          ]
      )
      )
