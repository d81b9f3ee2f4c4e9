from django.test import SimpleTestCase, override_settings

from common.utils.cities import CITY_VARIANTS, _build_index, city_skeleton, clean_city_label, normalize_city, same_city
from common.utils.geo import bounding_box, calculate_distance, within_radius


class CityNormalizationTests(SimpleTestCase):
	def setUp(self):
		_build_index.cache_clear()

	def test_canonical_tokens_normalize_to_themselves(self):
		for token in CITY_VARIANTS:
			self.assertEqual(normalize_city(token), token)
			self.assertEqual(normalize_city(normalize_city(token)), token)

	def test_known_variants_share_one_token(self):
		for label in ['Mehsana', 'Mahesana', 'MEHESANA', 'Mahesana City', 'mehsana  city', 'Mehsana.']:
			self.assertEqual(normalize_city(label), 'mehsana', label)

		self.assertEqual(normalize_city('Bangalore'), 'bengaluru')
		self.assertEqual(normalize_city('Baroda'), 'vadodara')

	def test_vowel_drift_folds_onto_known_city(self):
		self.assertEqual(city_skeleton('mehsana'), city_skeleton('mahesana'))
		self.assertEqual(normalize_city('Mehesaana'), 'mehsana')
		self.assertEqual(normalize_city('Surt'), 'surat')

	def test_shared_skeleton_alone_does_not_merge_places(self):
		self.assertEqual(city_skeleton('sirte'), city_skeleton('surat'))
		self.assertEqual(normalize_city('Sirte'), 'sirte')
		self.assertEqual(normalize_city(normalize_city('Sirte')), 'sirte')
		self.assertFalse(same_city('Sirte', 'Surat'))

	def test_unknown_city_keeps_cleaned_label(self):
		self.assertEqual(normalize_city('  Palanpur District '), 'palanpur')
		self.assertEqual(normalize_city(normalize_city('Palanpur')), 'palanpur')

	def test_empty_labels(self):
		self.assertEqual(normalize_city(None), '')
		self.assertEqual(normalize_city('   '), '')
		self.assertEqual(clean_city_label('City'), 'city')
		self.assertFalse(same_city('', ''))
		self.assertTrue(same_city('Mehsana', 'Mahesana'))
		self.assertFalse(same_city('Mehsana', 'Surat'))

	@override_settings(CITY_ALIASES={'Unjha': ['unja', 'unjha town']})
	def test_extra_aliases_from_settings(self):
		self.assertEqual(normalize_city('Unja'), 'unjha')
		self.assertEqual(normalize_city('Unjha Town'), 'unjha')
		self.assertEqual(normalize_city('unjha'), 'unjha')


class GeoUtilsTests(SimpleTestCase):
	def test_distance_of_one_degree_latitude(self):
		distance = calculate_distance(23.0, 72.0, 24.0, 72.0)
		self.assertAlmostEqual(distance, 111195, delta=200)

	def test_within_radius_handles_missing_points(self):
		self.assertFalse(within_radius(None, 72.0, 23.0, 72.0, 1000))
		self.assertTrue(within_radius(23.0, 72.0, 23.001, 72.0, 1000))
		self.assertFalse(within_radius(23.0, 72.0, 23.1, 72.0, 1000))

	def test_bounding_box_contains_radius(self):
		min_lat, max_lat, min_lon, max_lon = bounding_box(23.588, 72.369, 5000)
		self.assertLess(min_lat, 23.588 - 0.044)
		self.assertGreater(max_lat, 23.588 + 0.044)
		self.assertLess(min_lon, 72.369)
		self.assertGreater(max_lon, 72.369)
